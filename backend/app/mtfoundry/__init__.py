"""MTFoundry - metamorphic test generation & execution simulator"""

__version__ = "0.1.0"
