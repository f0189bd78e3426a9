"""Worker side of ProfRater: the job pipeline and its maintenance tasks."""
