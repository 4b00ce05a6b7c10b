import numpy as np
import qnflow
from hypothesis import strategies, given
from unittest import TestCase


class TestHarmonicStructure(TestCase):

    def test_contiguous(self):
        q = qnflow.HarmonicVector('q', n_harmonics=3)
        self.assertEqual(q.harmonic_map(), [1, 2, 3])
        self.assertEqual(q.n_harmonics, 3)
        self.assertEqual(q.highest_harmonic, 3)
        self.assertFalse(q.good_quality)

    def test_harmonic_map(self):
        q = qnflow.HarmonicVector('q', harmonic_map=[2, 4, 6, 8])
        self.assertEqual(list(q.harmonics()), [2, 4, 6, 8])
        self.assertEqual(q.first_harmonic(), 2)
        self.assertEqual(q.next_harmonic(4), 6)
        self.assertEqual(q.next_harmonic(8), qnflow.NO_HARMONIC)
        self.assertFalse(q.is_active(3))

    def test_truncated_map(self):
        q = qnflow.HarmonicVector('q', n_harmonics=2, harmonic_map=[2, 4, 6])
        self.assertEqual(q.harmonic_map(), [2, 4])
        with self.assertRaises(qnflow.ConfigurationError):
            qnflow.HarmonicVector('q', n_harmonics=4, harmonic_map=[2, 4, 6])

    def test_activate(self):
        q = qnflow.HarmonicVector('q')
        for harmonic in range(1, 16):
            q.activate(harmonic)
        self.assertEqual(q.harmonic_map(), list(range(1, 16)))
        with self.assertRaises(qnflow.ConfigurationError):
            q.activate(16)

    def test_activate_keeps_values(self):
        q = qnflow.HarmonicVector('q', n_harmonics=2)
        q.set_qx(2, 1.5)
        q.activate(2)
        self.assertEqual(q.qx(2), 1.5)

    def test_activate_between_active_harmonics(self):
        q = qnflow.HarmonicVector('q', harmonic_map=[2, 5])
        q.set_qx(2, 1.)
        q.set_qy(2, -1.)
        q.set_qx(5, 2.)
        q.set_qy(5, 3.)
        q.activate(3)
        self.assertEqual(q.harmonic_map(), [2, 3, 5])
        self.assertEqual((q.qx(3), q.qy(3)), (0., 0.))
        self.assertEqual((q.qx(2), q.qy(2)), (1., -1.))
        self.assertEqual((q.qx(5), q.qy(5)), (2., 3.))

    def test_set_inactive_harmonic(self):
        q = qnflow.HarmonicVector('q', harmonic_map=[2])
        with self.assertRaises(qnflow.ConfigurationError):
            q.set_qx(3, 1.)
        with self.assertRaises(qnflow.ConfigurationError):
            q.set_qy(16, 1.)
        self.assertEqual(q.qx(3), 0.)


class TestValues(TestCase):

    def test_normalize(self):
        q = qnflow.HarmonicVector('q', harmonic_map=[2])
        q.set_qx(2, 3.)
        q.set_qy(2, 4.)
        q.normalize()
        self.assertAlmostEqual(q.qx(2), 0.6)
        self.assertAlmostEqual(q.qy(2), 0.8)

    def test_normalize_not_significant(self):
        q = qnflow.HarmonicVector('q', harmonic_map=[2])
        q.set_qx(2, 9e-7)
        q.set_qy(2, 9e-7)
        q.normalize()
        self.assertEqual(q.qx(2), 9e-7)
        self.assertEqual(q.qy(2), 9e-7)
        self.assertEqual(q.qx_norm(2), 9e-7)

    def test_norm_components(self):
        q = qnflow.HarmonicVector('q', n_harmonics=1)
        q.set_qx(1, -3.)
        q.set_qy(1, 4.)
        self.assertAlmostEqual(q.qx_norm(1), -0.6)
        self.assertAlmostEqual(q.qy_norm(1), 0.8)
        self.assertAlmostEqual(q.length(1), 5.)
        # The components themselves are untouched
        self.assertEqual(q.qx(1), -3.)

    def test_event_plane(self):
        q = qnflow.HarmonicVector('q', n_harmonics=2)
        q.set_qy(2, 1.)
        self.assertAlmostEqual(q.event_plane(2), np.pi / 4)
        self.assertEqual(q.event_plane(1), 0.)

    def test_copy_from(self):
        source = qnflow.HarmonicVector('source', harmonic_map=[1, 3])
        source.set_qx(3, 2.)
        source.set_good(True)
        target = qnflow.HarmonicVector('target', harmonic_map=[1, 3])
        target.copy_from(source)
        self.assertEqual(target.qx(3), 2.)
        self.assertTrue(target.good_quality)
        self.assertEqual(target.name, 'target')
        target.copy_from(source, change_name=True)
        self.assertEqual(target.name, 'source')

    def test_copy_from_mismatch(self):
        source = qnflow.HarmonicVector('source', harmonic_map=[1, 3])
        source.set_qx(1, 5.)
        source.set_good(True)
        target = qnflow.HarmonicVector('target', harmonic_map=[1, 2])
        target.set_qx(1, 1.)
        with self.assertRaises(qnflow.ConfigurationError):
            target.copy_from(source)
        self.assertEqual(target.qx(1), 1.)
        self.assertFalse(target.good_quality)

    def test_reset_idempotent(self):
        q = qnflow.HarmonicVector('q', harmonic_map=[2, 5])
        q.set_qx(5, 1.)
        q.set_qy(2, -1.)
        q.set_good(True)
        q.reset()
        once = (q.harmonic_map(), [q.qx(h) for h in range(1, 16)],
                [q.qy(h) for h in range(1, 16)], q.good_quality)
        q.reset()
        twice = (q.harmonic_map(), [q.qx(h) for h in range(1, 16)],
                 [q.qy(h) for h in range(1, 16)], q.good_quality)
        self.assertEqual(once, twice)
        self.assertEqual(q.harmonic_map(), [2, 5])
        self.assertFalse(q.good_quality)

    def test_dataframe(self):
        q = qnflow.HarmonicVector('q', harmonic_map=[2, 4])
        q.set_qx(4, 1.)
        df = q.to_dataframe()
        self.assertEqual(list(df['harmonic']), [2, 4])
        self.assertEqual(list(df['qx']), [0., 1.])
        self.assertIn('event_plane', df.columns)
        self.assertIn("'q'", str(q))


@given(strategies.floats(-100, 100), strategies.floats(-100, 100))
def test_unit_length_after_normalize(qx, qy):
    q = qnflow.HarmonicVector('q', n_harmonics=1)
    q.set_qx(1, qx)
    q.set_qy(1, qy)
    significant = q.is_significant(1)
    q.normalize()
    if significant:
        assert abs(q.length(1) - 1) < 1e-9
    else:
        assert (q.qx(1), q.qy(1)) == (qx, qy)
