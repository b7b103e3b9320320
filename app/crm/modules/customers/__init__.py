"""
Customers module.

Scope:
- Customers CRUD over JSON (list + get + create + update + delete)
- Batch update of many customers in one transaction
"""
