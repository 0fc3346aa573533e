"""
repositories/ - Data Access Layer
==================================
Encapsulates all SQL for the users table. Repositories receive raw rows from
the database and return domain model objects; handles are compared lowercase
and state writes go through a version-guarded compare-and-set.
"""
