"""Video sessions, milestone grading and lesson progress."""
