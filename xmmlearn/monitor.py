"""
The :mod:`xmmlearn.monitor` module implements the stopping rule of the
Expectation-Maximization loop and the training progress reporter.
"""

import logging
from time import time

import numpy as np

__all__ = ['EMStopCriterion', 'VerboseReporter']

_log = logging.getLogger(__name__)


class EMStopCriterion(object):
    """Stop criterion of the Expectation-Maximization algorithm.

    Parameters
    ----------
    min_steps : int
        Minimum number of EM iterations.
    max_steps : int
        Maximum number of EM iterations. When ``max_steps`` is smaller
        than ``min_steps`` the relative change criterion is used instead.
    percent_chg : float
        Log-likelihood relative change threshold, in percent.
    """

    def __init__(self, min_steps=10, max_steps=0, percent_chg=0.01):
        self.min_steps = min_steps
        self.max_steps = max_steps
        self.percent_chg = percent_chg

    def has_converged(self, n_iterations, log_prob, old_log_prob):
        if self.max_steps >= self.min_steps:
            return n_iterations >= self.max_steps
        if n_iterations < self.min_steps:
            return False
        if not np.isfinite(old_log_prob):
            return False
        if old_log_prob == 0:
            return log_prob == 0
        relative_change = 100. * (log_prob - old_log_prob) / old_log_prob
        return abs(relative_change) <= self.percent_chg


class VerboseReporter(object):
    """Reports the progress of the EM iterations through logging.

    Parameters
    ----------
    verbose : int
        If 1, reports at decreasing frequency (every 1, 10, 100...
        iterations). If greater than 1, reports every iteration.
    """

    def __init__(self, verbose):
        self.verbose = verbose

    def init(self):
        header_fields = ['Iter', 'Log Likelihood', 'Log Improvement',
                         'Time']
        verbose_fmt = ['{iter:>10d}', '{logprob:>16.4f}',
                       '{improvement:>16.4f}', '{time:>10.2f}s']
        _log.info(('%10s ' + '%16s ' * (len(header_fields) - 1))
                  % tuple(header_fields))
        self.verbose_fmt = ' '.join(verbose_fmt)
        self.verbose_mod = 1
        self.start_time = time()

    def update(self, i, logprob, improvement):
        if (i + 1) % self.verbose_mod == 0:
            _log.info(self.verbose_fmt.format(
                iter=i + 1, logprob=logprob, improvement=improvement,
                time=time() - self.start_time))
            if self.verbose == 1 and ((i + 1) // (self.verbose_mod * 10) > 0):
                self.verbose_mod *= 10
