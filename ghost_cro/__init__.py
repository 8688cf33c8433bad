"""Ghost CRO checkout conversion intelligence service"""

__version__ = "0.4.0"
