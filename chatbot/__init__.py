"""
                Restaurant Chat Ordering Assistant

A menu-driven chat backend: devices send short numeric commands and the
server walks each conversation through browsing, cart building, checkout
and payment, persisting every step.

Author: Khalil_Bannouri
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Khalil_Bannouri"
