"""
Ingest pipeline per contatti dipendenti (CSV/JSON).

Questo modulo contiene la pipeline deterministica:
- Gate: selezione parser da metadati o sniffing del contenuto
- Parse: CSV (header o euristico) e JSON
- Validazione: regole di campo (Pydantic)
- Salvataggio: record store con dedup per hash
"""
