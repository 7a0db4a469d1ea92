"""Console levels and structured record sinks."""

import json

import pytest

from webbake import logging as wlog
from webbake.logging import FileSink, LogLevel, NullSink, emit_record, get_logger


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    monkeypatch.setitem(wlog._config, 'default_level', LogLevel.INFO)
    monkeypatch.setitem(wlog._config, 'module_levels', {})
    monkeypatch.setitem(wlog._config, 'modules', {})
    monkeypatch.setitem(wlog._config, 'log_dir', None)
    yield
    wlog.close_all_sinks()


class TestLevels:
    def test_default_level_filters(self, capsys):
        log = get_logger('build')
        log.debug("hidden")
        log.info("shown %d", 3)

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "[build] INFO: shown 3" in err

    def test_module_level_override(self, capsys):
        wlog.configure_logging(level='WARNING', modules={'watch': 'DEBUG'})

        get_logger('watch').debug("watch detail")
        get_logger('build').info("build detail")

        err = capsys.readouterr().err
        assert "watch detail" in err
        assert "build detail" not in err

    def test_bad_format_args_still_logged(self, capsys):
        get_logger('build').info("no placeholders", 1)
        assert "no placeholders (1,)" in capsys.readouterr().err

    def test_exception_includes_traceback(self, capsys):
        try:
            raise RuntimeError("kaboom")
        except RuntimeError:
            get_logger('build').exception("rebuild failed")

        err = capsys.readouterr().err
        assert "rebuild failed" in err
        assert "RuntimeError: kaboom" in err

    def test_disable_logging(self, capsys):
        wlog.disable_logging()
        get_logger('build').error("silent")
        assert capsys.readouterr().err == ""

    def test_loggers_cached(self):
        assert get_logger('serve') is get_logger('serve')


class TestRecords:
    """emit_record and sink selection."""

    def test_disabled_module_gets_null_sink(self):
        assert emit_record('build', {'success': True}) is False
        assert isinstance(wlog.get_sink('build'), NullSink)

    def test_enabled_module_writes_jsonl(self, tmp_path, monkeypatch):
        monkeypatch.setitem(wlog._config, 'modules', {'build': {'enabled': True, 'dir': str(tmp_path)}})

        assert emit_record('build', {'success': True, 'routes': ['/']}) is True
        assert emit_record('build', {'success': False, 'routes': []}) is True

        sink = wlog.get_sink('build')
        assert isinstance(sink, FileSink)
        lines = sink.log_paths['build'].read_text().splitlines()
        records = [json.loads(line) for line in lines]
        assert [r['success'] for r in records] == [True, False]
        assert all('wall_time' in r for r in records)

    def test_env_config_parsed(self, monkeypatch):
        monkeypatch.setenv('WEBBAKE_LOGGING_BUILD_ENABLED', 'true')
        monkeypatch.setenv('WEBBAKE_LOG_WATCH', 'debug')
        wlog._load_env_config()

        assert wlog.get_module_config('build') == {'enabled': True}
        assert wlog._config['module_levels']['watch'] == LogLevel.DEBUG

    def test_log_dir_default(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert wlog.get_log_dir() == str(tmp_path.resolve() / '.webbake' / 'logs')

    def test_log_dir_configured(self, tmp_path, monkeypatch):
        monkeypatch.setitem(wlog._config, 'log_dir', str(tmp_path / 'logs'))
        assert wlog.get_log_dir() == str(tmp_path / 'logs')

    def test_registered_sink_receives_records(self, tmp_path):
        sink = FileSink(log_dir=str(tmp_path), session_name='run')
        wlog.register_sink('assets', sink)

        assert emit_record('assets', {'path': '/public/style.css'}) is True

        record = json.loads((tmp_path / 'run_assets.jsonl').read_text())
        assert record['path'] == '/public/style.css'
