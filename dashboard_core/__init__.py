"""Core (UI-agnostic) dashboard logic.

This package contains:
- workbook parsing (XLSX -> Record list + project names)
- period label helpers
- filter normalization
- aggregation / forecast functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
- CSV export and KPI target bookkeeping
"""
