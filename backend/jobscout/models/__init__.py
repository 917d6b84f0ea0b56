from jobscout.models.profile import Profile

__all__ = ["Profile"]
