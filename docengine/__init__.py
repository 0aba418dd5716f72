"""
Financial Document Engine - Source Package

The quote and invoice core of a freelancer back-office tool: taxed
totals, sequential document numbers and the quote -> invoice lifecycle.

DESIGN PRINCIPLES:
1. Money is Decimal, rounded half-up per line and again per document
2. Every multi-row write is one transaction; nothing is retried
3. Document numbers are never handed out twice
4. Every step must be auditable
5. Storage and email delivery are swappable
"""

__version__ = "1.0.0"
__author__ = "Financial Document Engine Team"
