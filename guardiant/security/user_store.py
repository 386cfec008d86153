from guardiant.errors import ServiceError, NOT_FOUND
from guardiant.models import User


class UserStore:
    """Data access for the user record."""

    def __init__(self, session):
        self.session = session

    def get(self, user_id: str):
        if not user_id:
            return None
        return self.session.get(User, user_id)

    def require(self, user_id: str) -> User:

        user = self.get(user_id)

        if not user:
            raise ServiceError(NOT_FOUND, "User not found")

        return user

    def get_by_email(self, email: str):
        return self.session.query(User).filter(User.email == email).first()

    def push_token(self, user_id: str):
        user = self.get(user_id)
        return user.push_token if user else None

    def set_push_token(self, user_id: str, token, at):

        user = self.require(user_id)

        user.push_token = token
        user.push_token_updated_at = at

        self.session.commit()

    def clear_push_token(self, user_id: str, token: str) -> bool:
        """
        Clear the stored token if it is still `token`.

        A newer token registered while the failed send was in flight
        is left alone.
        """

        cleared = (
            self.session.query(User)
            .filter(User.id == user_id, User.push_token == token)
            .update({User.push_token: None}, synchronize_session="fetch")
        )

        self.session.commit()

        return cleared > 0

    def increment(self, user_id: str, **fields):
        """Atomic counter increments, e.g. increment(uid, failed_attempts=1)."""

        values = {
            getattr(User, name): getattr(User, name) + amount
            for name, amount in fields.items()
        }

        self.session.query(User).filter(User.id == user_id).update(
            values, synchronize_session="fetch"
        )
