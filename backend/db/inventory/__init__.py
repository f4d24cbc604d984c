"""
Stock ledger tables.

Models:
- Item (catalog entry: name, category, unit, minimum threshold)
- StockLevel (current quantity per item, one row per item)
- Entry / Exit (append-only movements that move StockLevel)
"""
