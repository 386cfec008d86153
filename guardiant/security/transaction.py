import logging
from contextlib import contextmanager


logger = logging.getLogger(__name__)


class Transaction:
    """
    Writes staged on one session, committed or aborted together.

    Staging does not flush; nothing reaches the database until commit.
    """

    def __init__(self, session):
        self.session = session
        self.staged = []

    def stage(self, obj):
        self.session.add(obj)
        self.staged.append(obj)
        return obj

    def stage_update(self, obj, **fields):
        for name, value in fields.items():
            setattr(obj, name, value)
        return self.stage(obj)

    def commit(self):
        self.session.commit()

    def abort(self):
        self.session.rollback()


class TransactionManager:

    def __init__(self, session):
        self.session = session

    @contextmanager
    def begin(self):

        tx = Transaction(self.session)

        try:
            yield tx
            tx.commit()

        except Exception:
            logger.warning(
                "Aborting transaction with %d staged writes",
                len(tx.staged),
            )
            tx.abort()
            raise
