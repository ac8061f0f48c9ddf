"""Two-tier scope policy for bearer tokens."""

from enum import Enum

from beartype import beartype


class ScopeType(str, Enum):
    """Scope tiers."""

    CUSTOMER = "customer"
    OPERATOR = "operator"


class ScopeValidator:
    """Scope checks used by the grant engine and the bearer boundary."""

    @staticmethod
    @beartype
    def verify_scope(
        token_scope: str,
        client_scope: str,
        user_scope: str,
        required: str | None,
    ) -> bool:
        """Decide whether a token satisfies a required scope.

        Args:
            token_scope: Scope recorded on the token
            client_scope: Scope of the client the token was issued to
            user_scope: Scope of the token's owner
            required: Scope demanded by the protected operation

        Returns:
            True if access is allowed
        """
        customer = ScopeType.CUSTOMER.value
        if required == customer:
            return token_scope == customer and (
                client_scope == customer or user_scope == customer
            )
        if required == ScopeType.OPERATOR.value:
            # Operator access still requires a customer-scoped client and user.
            return (
                token_scope == ScopeType.OPERATOR.value
                and client_scope == customer
                and user_scope == customer
            )
        return False

    @staticmethod
    @beartype
    def validate_scope(requested: str | None, client_scope: str) -> str | None:
        """Return the requested scope if it is exactly the client's scope."""
        if requested is not None and requested == client_scope:
            return requested
        return None
