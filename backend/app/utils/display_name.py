from app.models.user import User


def public_display_name(user: User) -> str:
    """Name shown next to public ratings: first name and last initial, never the email."""
    if user.first_name and user.last_name:
        return f"{user.first_name} {user.last_name[0]}."
    if user.first_name:
        return user.first_name
    return "FundiPluss customer"
