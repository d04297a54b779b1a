"""cloudcmdb: multi-tenant CMDB core for cloud assets."""

__version__ = "0.3.0"
