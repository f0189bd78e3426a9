"""Analysis collaborator: turns scraped reviews into a Markdown summary."""
