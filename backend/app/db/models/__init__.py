"""ORM models exposed for metadata discovery."""
from app.db.models.habit import Habit
from app.db.models.habit_entry import HabitEntry
from app.db.models.journal_entry import JournalEntry
from app.db.models.transformer import Transformer
from app.db.models.user import User

__all__ = [
    "Habit",
    "HabitEntry",
    "JournalEntry",
    "Transformer",
    "User",
]
