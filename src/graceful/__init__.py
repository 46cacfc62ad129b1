"""graceful: deregister a service instance from discovery before shutdown."""

__version__ = "0.1.0"
