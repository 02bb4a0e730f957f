"""
Permission feature module.

Role-based access control: the seeded permission catalogue, the permission
tree, and the access decisions routes depend on.
"""
