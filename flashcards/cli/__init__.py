"""Terminal interface: typer commands, the quiz loop and Rich rendering."""
