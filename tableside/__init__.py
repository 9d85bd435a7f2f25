"""
                Tableside Ordering

QR table-ordering backend: customers browse the menu, order and pay from
their table; staff run the kitchen flow and service requests from the
admin endpoints. Hybrid Mock/Real payment and notification services.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
