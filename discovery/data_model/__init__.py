"""Shared data model primitives."""

from discovery.data_model.base import StrictBaseModel, utc_now


__all__ = ["StrictBaseModel", "utc_now"]
