"""
SILL data service.

This package is responsible for:
* Keeping an in-memory snapshot of the catalog rows and compiled data.
* Applying mutations to the rows and committing them to the data repository.
* Recomputing the catalog locally and requesting full out-of-band rebuilds.
"""
