from speedcache.models.report import Report

__all__ = ["Report"]
