"""
Permission management feature module.

Role-based access control over four independent permission matrices
(modules, CRUD operations, special features, data categories), served from
a two-tier cache so checks never wait on the remote permission documents.
"""
