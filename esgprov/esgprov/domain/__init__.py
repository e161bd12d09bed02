"""
Domain side of the provenance engine.

- capabilities: Auditable / HashBearing contracts entity types implement
- entities: reporting periods, sections, decisions, narratives, assumptions, gaps
- store: ReportStore, the reference collaborator wiring them to the engine

Only the capability contracts are imported here; entities and store pull in
the ledger and integrity packages, which themselves depend on capabilities.
"""

from .capabilities import Auditable, HashBearing

__all__ = ["Auditable", "HashBearing"]
