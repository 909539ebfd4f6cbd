import logging

import numpy as np

from xmmlearn.monitor import EMStopCriterion, VerboseReporter


def test_fixed_number_of_steps():
    criterion = EMStopCriterion(min_steps=5, max_steps=8)
    assert not criterion.has_converged(7, -10., -10.)
    assert criterion.has_converged(8, -10., -20.)


def test_relative_change():
    criterion = EMStopCriterion(min_steps=3, max_steps=0, percent_chg=1.)
    assert not criterion.has_converged(2, -100., -100.)
    assert criterion.has_converged(3, -100.5, -100.)
    assert not criterion.has_converged(3, -110., -100.)


def test_first_iteration_never_converges():
    criterion = EMStopCriterion(min_steps=1, max_steps=0)
    assert not criterion.has_converged(1, -100., -np.inf)


def test_null_log_likelihood():
    criterion = EMStopCriterion(min_steps=1, max_steps=0)
    assert criterion.has_converged(2, 0., 0.)
    assert not criterion.has_converged(2, 1., 0.)


def test_verbose_reporter_logs(caplog):
    caplog.set_level(logging.INFO, logger='xmmlearn.monitor')
    reporter = VerboseReporter(verbose=2)
    reporter.init()
    for i in range(3):
        reporter.update(i, -10. + i, 1.)
    # header plus one line per iteration
    assert len(caplog.records) == 4
    assert 'Log Likelihood' in caplog.records[0].getMessage()


def test_verbose_reporter_frequency(caplog):
    caplog.set_level(logging.INFO, logger='xmmlearn.monitor')
    reporter = VerboseReporter(verbose=1)
    reporter.init()
    for i in range(30):
        reporter.update(i, -10., 0.)
    # iterations 1 to 10, then 20 and 30
    assert len(caplog.records) == 1 + 12
