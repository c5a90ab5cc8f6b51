"""Shared data model primitives."""

from clipfeed.data_model.base import StrictBaseModel


__all__ = ["StrictBaseModel"]
