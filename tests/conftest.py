pytest_plugins = ["cookit.testing.fixtures"]
