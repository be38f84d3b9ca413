"""StudyFocus backend: study session timer and environment monitoring."""
