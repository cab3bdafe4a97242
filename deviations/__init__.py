"""Core (UI-agnostic) fleet deviation logic.

This package contains:
- record model and column vocabulary
- data cleaning (XLSX rows -> canonical records)
- filter normalization
- dashboard compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
- editable slide deck export (python-pptx)
- persistence collaborators (Supabase or local memory)
"""
