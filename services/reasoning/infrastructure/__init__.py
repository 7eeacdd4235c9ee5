from infrastructure.uow import UnitOfWork, SequenceSnapshot

__all__ = ["UnitOfWork", "SequenceSnapshot"]
