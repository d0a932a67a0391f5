"""ledger/ -- Currencies, accounts, categories and operations for Pocketbook.

Layer rule: ledger/ may import from auth/ and core/, never from api/.
"""
