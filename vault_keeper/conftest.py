pytest_plugins = ["vault_keeper.testing.fixtures"]


def pytest_configure(config):
    config.addinivalue_line("markers", "scenario: end-to-end keeper tick scenario")
