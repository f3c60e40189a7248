# Facility Visitor Management System - Modules Package
"""
Core business logic modules for the Facility Visitor Management System.
Contains the visitor lifecycle, training compliance and data export modules.
"""

__version__ = "2.1.0"
__description__ = "Core modules for visitor management functionality"
