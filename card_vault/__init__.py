"""Card registration engine: spreadsheet rows -> Vault AddCard / UpdateCard."""

__version__ = "0.1.0"
