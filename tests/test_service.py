"""
Tests for the TM1Service facade and the command line front end.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import main
from tm1rest import TM1Service, connect
from tm1rest.bulk import BulkService
from tm1rest.config import ClientConfig
from tm1rest.exceptions import ExecutionFailure


class TestTM1Service:
    """Tests for TM1Service."""

    def test_from_config(self, temp_config_file):
        """Should wire services to one RestService built from the instance config."""
        config = ClientConfig.from_file(temp_config_file)

        with patch("tornado.httpclient.AsyncHTTPClient"):
            tm1 = TM1Service.from_config(config, "development")

        assert tm1.rest.base_url == "http://dev-tm1.local:8011/api/v1"
        assert tm1.rest.namespace == "LDAP"
        assert tm1.rest.session_context == "Test Session"
        assert isinstance(tm1.bulk, BulkService)
        assert tm1.bulk.cells is tm1.cells
        assert tm1.bulk.default_options.chunk_size == 500

    def test_connect_factory(self):
        """Should create an unconnected service."""
        with patch("tornado.httpclient.AsyncHTTPClient"):
            tm1 = connect("https://tm1:8010/api/v1", access_token="tok")

        assert tm1.rest.access_token == "tok"
        assert tm1.rest.connected is False

    @pytest.mark.asyncio
    async def test_context_manager(self):
        """Should connect on enter and close on exit."""
        with patch("tornado.httpclient.AsyncHTTPClient"):
            tm1 = connect("https://tm1:8010/api/v1")
        tm1.rest.connect = AsyncMock(return_value="12.0.0")
        tm1.rest.close = AsyncMock()

        async with tm1 as service:
            assert service is tm1

        tm1.rest.connect.assert_awaited_once()
        tm1.rest.close.assert_awaited_once()


def fake_service() -> MagicMock:
    """TM1Service stand-in usable with async with."""
    service = MagicMock()
    service.__aenter__ = AsyncMock(return_value=service)
    service.__aexit__ = AsyncMock(return_value=None)
    service.bulk.import_csv = AsyncMock(return_value=2)
    service.bulk.export_csv = AsyncMock(return_value="Year,Value\n2024,1")
    service.processes.poll_execute_with_return = AsyncMock(return_value={"ok": True})
    service.processes.execute_with_return = AsyncMock(
        return_value=(False, "Aborted", "TM1ProcessError.log")
    )
    return service


class TestCLI:
    """Tests for main.py."""

    def test_parse_parameters(self):
        """Should split NAME=VALUE pairs."""
        assert main.parse_parameters(["pYear=2024", "pNote=a=b"]) == {
            "pYear": "2024",
            "pNote": "a=b",
        }
        with pytest.raises(ValueError):
            main.parse_parameters(["broken"])

    def test_missing_config(self, temp_dir):
        """Should exit with 2 when the config file is missing."""
        assert main.main(["--config", str(temp_dir / "nope.json"), "run-process", "x"]) == 2

    def test_import_csv(self, temp_config_file, temp_dir, capsys):
        """Should import the file through the bulk service."""
        data = temp_dir / "sales.csv"
        data.write_text("Year,Period,Measure,Value\n2024,Q1,Revenue,1\n2024,Q2,Revenue,2\n")
        service = fake_service()

        with patch("main.setup_logging"), patch.object(
            main.TM1Service, "from_config", return_value=service
        ) as from_config:
            code = main.main(
                ["--config", str(temp_config_file), "--instance", "production",
                 "import-csv", "Sales", str(data), "--batch-size", "10"]
            )

        assert code == 0
        from_config.assert_called_once()
        assert from_config.call_args.args[1] == "production"
        cube, text, options = service.bulk.import_csv.await_args.args
        assert cube == "Sales"
        assert text.startswith("Year,Period")
        assert options.batch_size == 10
        assert "Imported 2 cell(s) into Sales" in capsys.readouterr().out

    def test_export_csv_to_file(self, temp_config_file, temp_dir):
        """Should write the export to --output."""
        output = temp_dir / "out.csv"
        service = fake_service()

        with patch("main.setup_logging"), patch.object(
            main.TM1Service, "from_config", return_value=service
        ):
            code = main.main(
                ["--config", str(temp_config_file), "export-csv", "SELECT ...", "--output", str(output)]
            )

        assert code == 0
        assert output.read_text() == "Year,Value\n2024,1\n"

    def test_run_process_poll(self, temp_config_file, capsys):
        """Should poll using the configured defaults."""
        service = fake_service()

        with patch("main.setup_logging"), patch.object(
            main.TM1Service, "from_config", return_value=service
        ):
            code = main.main(
                ["--config", str(temp_config_file), "run-process", "Load.Sales",
                 "--param", "pYear=2024", "--poll"]
            )

        assert code == 0
        call = service.processes.poll_execute_with_return.await_args
        assert call.args == ("Load.Sales", {"pYear": "2024"})
        assert call.kwargs == {"timeout": 60, "poll_interval": 2}
        assert '"ok": true' in capsys.readouterr().out

    def test_run_process_failure(self, temp_config_file):
        """Should return 1 when the process does not complete successfully."""
        service = fake_service()

        with patch("main.setup_logging"), patch.object(
            main.TM1Service, "from_config", return_value=service
        ):
            code = main.main(["--config", str(temp_config_file), "run-process", "Load.Sales"])

        assert code == 1

    def test_tm1_error(self, temp_config_file, capsys):
        """Should report TM1 errors and return 1."""
        service = fake_service()
        service.processes.poll_execute_with_return = AsyncMock(
            side_effect=ExecutionFailure("Load.Sales", "7", "Data source missing")
        )

        with patch("main.setup_logging"), patch.object(
            main.TM1Service, "from_config", return_value=service
        ):
            code = main.main(
                ["--config", str(temp_config_file), "run-process", "Load.Sales", "--poll"]
            )

        assert code == 1
        assert "Data source missing" in capsys.readouterr().err
