"""Service layer shared by the REST API and sync jobs."""

from cloudcmdb.service.cmdb import CMDB, Repositories

__all__ = ["CMDB", "Repositories"]
