"""
Core functionality per employee-contacts.

Questo modulo contiene:
- Configurazione (config.py)
- Database engine SQLite/WAL (database.py)
- Record store contatti (employee_store.py)
- Catalogo errori e Outcome (errors.py)
- Logging (logger.py)
"""
