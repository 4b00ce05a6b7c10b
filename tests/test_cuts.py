import numpy as np
import qnflow
from hypothesis import strategies, given
from unittest import TestCase


class TestCuts(TestCase):

    def test_within(self):
        cut = qnflow.CutWithin(0, 0., 50.)
        self.assertTrue(cut.is_selected([0.]))
        self.assertTrue(cut.is_selected([49.9]))
        self.assertFalse(cut.is_selected([50.]))
        self.assertFalse(cut.is_selected([-1.]))
        with self.assertRaises(ValueError):
            qnflow.CutWithin(0, 50., 50.)

    def test_above_and_below(self):
        variables = dict(n_tracks=10)
        self.assertTrue(qnflow.CutAbove('n_tracks', 5).is_selected(variables))
        self.assertFalse(qnflow.CutAbove('n_tracks', 10).is_selected(variables))
        self.assertTrue(qnflow.CutBelow('n_tracks', 11).is_selected(variables))
        self.assertFalse(qnflow.CutBelow('n_tracks', 10).is_selected(variables))

    def test_non_finite_rejected(self):
        for value in (np.nan, np.inf, -np.inf):
            self.assertFalse(qnflow.CutAbove(0, -1e300).is_selected([value]))
            self.assertFalse(qnflow.CutBelow(0, 1e300).is_selected([value]))

    def test_cuts_set(self):
        cuts = qnflow.CutsSet()
        self.assertEqual(len(cuts), 0)
        self.assertTrue(cuts.is_selected([np.nan, np.nan]))
        cuts.add(qnflow.CutWithin(0, 0., 80.))
        cuts.add(qnflow.CutAbove(1, 10))
        self.assertEqual([type(c) for c in cuts], [qnflow.CutWithin, qnflow.CutAbove])
        self.assertTrue(cuts.is_selected([20., 11.]))
        self.assertFalse(cuts.is_selected([90., 11.]))
        self.assertFalse(cuts.is_selected([20., 10.]))
        self.assertIn('CutAbove(1, 10)', repr(cuts))


@given(strategies.floats(-1e3, 1e3), strategies.floats(-1e3, 1e3), strategies.floats(-2e3, 2e3))
def test_within_matches_bounds(low, high, value):
    if not low < high:
        return
    cut = qnflow.CutWithin(0, low, high)
    assert cut.is_selected([value]) == (low <= value < high)
    both = qnflow.CutsSet([qnflow.CutAbove(0, low), qnflow.CutBelow(0, high)])
    assert both.is_selected([value]) == (low < value < high)
