"""Transactional storage access"""

from app.persistence.results import Outcome, ProcedureResult, SUCCESS
from app.persistence.gateway import PersistenceGateway

__all__ = ["Outcome", "ProcedureResult", "SUCCESS", "PersistenceGateway"]
