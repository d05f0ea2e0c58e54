"""Dashboard statistics (streak, weekly histogram, completion rate)."""
