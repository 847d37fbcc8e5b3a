"""跨数据库引擎的表数据同步"""

__version__ = "0.2.0"
