"""
Routers per API employee-contacts.

Moduli:
- employees: Router contatti dipendenti (GET/POST /api/employee, GET/PUT /api/employee/{name})
"""
from . import employees

__all__ = ["employees"]
