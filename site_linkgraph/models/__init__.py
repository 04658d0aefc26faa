"""Pydantic and dataclass models shared by the catalog, graph and pipeline layers."""
