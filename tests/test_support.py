import json

import pytest

from mod5image.image_config import default_config, DEFAULT_PRIME_BOUND
from mod5image.errlog import ErrorLog, NullLog
from mod5image.run_stats import RunStats
from mod5image.batch import main, read_curves

from conftest import TOY_GENERATORS


class TestConfig:
    def test_defaults(self):
        conf = default_config()
        assert conf['PRIME_BOUND'] == DEFAULT_PRIME_BOUND
        assert conf['MIN_SAMPLE_PRIME'] == 7
        assert conf['SQDIST_TOLERANCE'] == 0.001
        assert conf['LOGLIKE_TOLERANCE'] == 0.0001

    def test_override(self):
        assert default_config(PRIME_BOUND=100)['PRIME_BOUND'] == 100

    def test_unknown_key(self):
        with pytest.raises(KeyError):
            default_config(NOT_A_KEY=1)


class TestErrorLog:
    def test_append_and_overwrite(self, tmp_path):
        path = str(tmp_path / "err.log")
        with ErrorLog(path, mode='w') as log:
            log.write("invert", "first")
        with ErrorLog(path, mode='a') as log:
            log.write("invert", "second")
        text = open(path).read()
        assert "[invert] first" in text and "[invert] second" in text
        with ErrorLog(path, mode='w') as log:
            log.write("verify", "third")
            assert log.count == 1
        assert "first" not in open(path).read()

    def test_bad_mode(self, tmp_path):
        with pytest.raises(ValueError):
            ErrorLog(str(tmp_path / "err.log"), mode='r')

    def test_null_log_counts(self):
        log = NullLog()
        log.write("x", "y")
        assert log.count == 1


class TestRunStats:
    def test_counters_and_merge(self):
        a, b = RunStats("a"), RunStats("b")
        a.incr('samples_used', 3)
        b.incr('samples_used', 2)
        b.record_discard('reconstruction', (1, 0, 0, 0))
        a.merge(b)
        assert a.counters['samples_used'] == 5
        assert a.discard_reasons['reconstruction'] == 1

    def test_phases_and_stages(self, tmp_path):
        stats = RunStats("c")
        stats.start_phase('sampling')
        stats.end_phase('sampling')
        stats.record_stage('local', {"5.1.1"})
        assert 'sampling' in stats.phase_times
        assert "local" in stats.summary_string()
        path = tmp_path / "stats.json"
        stats.to_json(str(path))
        assert json.loads(path.read_text())['stages'] == [['local', ['5.1.1']]]


def _flat(M):
    return [int(c) for row in M.rows() for c in row]


class TestBatchCli:
    @pytest.fixture
    def lattice_file(self, tmp_path):
        data = {label: {"generators": [_flat(g) for g in gens]} for label, gens in TOY_GENERATORS.items()}
        path = tmp_path / "lattice.json"
        path.write_text(json.dumps(data))
        return str(path)

    @pytest.fixture
    def curves_file(self, tmp_path):
        path = tmp_path / "curves.txt"
        path.write_text("# comment\n\n431250:431250:[x^5-5*x^3+x^2+5*x-1,x]\nnot a curve\n")
        return str(path)

    def test_read_curves_logs_bad_lines(self, curves_file, tmp_path):
        with ErrorLog(str(tmp_path / "err.log"), mode='w') as log:
            curves = read_curves(curves_file, log)
            assert len(curves) == 1
            assert log.count == 1

    def test_main(self, lattice_file, curves_file, tmp_path, capsys):
        stats_path = tmp_path / "stats.json"
        code = main(["--lattice", lattice_file, "--curves", curves_file, "--bound", "30",
                     "--no-analytic", "--log", str(tmp_path / "err.log"), "--overwrite",
                     "--stats", str(stats_path)])
        assert code == 0
        out = capsys.readouterr().out
        assert "1 curves" in out
        assert stats_path.exists()

    def test_missing_lattice(self, curves_file, tmp_path):
        assert main(["--lattice", str(tmp_path / "missing.json"), "--curves", curves_file]) == 1
