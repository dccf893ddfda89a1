from pair_todo.ui.telegram.texts import tasks  # noqa: F401
