from harbour.main import main


def test_example() -> None:
    assert main()
