# guardiant/security/self_healer.py

import logging

from guardiant import audit


logger = logging.getLogger(__name__)


def self_heal(users, user_id, token, failure):
    """
    Repair the user record after the push provider rejected `token`.

    Returns the list of actions taken.
    """

    actions = []

    # Provider says the token is dead, stop targeting it
    if users.clear_push_token(user_id, token):
        actions.append("PUSH_TOKEN_CLEARED")
        audit.log_event(user_id, "PUSH_TOKEN_CLEARED", str(failure))

    logger.info("[SELF HEAL] user=%s failure=%s actions=%s", user_id, failure, actions)

    return actions
