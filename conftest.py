pytest_plugins = [
    "stockflow.tests.fixtures",
]
