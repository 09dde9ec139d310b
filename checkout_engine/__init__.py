"""
多商户电商结算引擎
"""

__version__ = "1.0.0"
