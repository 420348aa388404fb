import allure
from click.testing import CliRunner

from ralph import __version__
from ralph.main import ralph

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Version"),
]


def test_version():
    assert __version__


def test_version_option():
    runner = CliRunner()
    result = runner.invoke(ralph, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
