import numpy as np
import qnflow
from unittest import TestCase

EVENT_CLASSES = qnflow.EventClassVariablesSet([
    qnflow.EventClassVariable.from_range(0, 'Centrality', 2, 0., 100.)])


def _tracks(**kwargs):
    kwargs.setdefault('n_harmonics', 2)
    return qnflow.TracksDetectorConfiguration('TPC', EVENT_CLASSES, **kwargs)


class TestBuildQnVector(TestCase):

    def test_raw_sums(self):
        configuration = _tracks()
        configuration.add_data_vector(0.)
        configuration.add_data_vector(np.pi / 2)
        configuration.build_qn_vector()
        plain = configuration.plain_qn_vector
        self.assertAlmostEqual(plain.qx(1), 1.)
        self.assertAlmostEqual(plain.qy(1), 1.)
        self.assertAlmostEqual(plain.qx(2), 0.)
        self.assertTrue(plain.good_quality)
        self.assertIs(configuration.current_qn_vector, plain)

    def test_normalizations(self):
        expected = dict(none=4., over_m=1., over_sqrt_m=2., unit_length=1.)
        for method, qx in expected.items():
            configuration = _tracks(normalization=method)
            configuration.add_data_vectors(np.zeros(4))
            configuration.build_qn_vector()
            self.assertAlmostEqual(configuration.plain_qn_vector.qx(1), qx, msg=method)
        with self.assertRaises(ValueError):
            _tracks(normalization='over_n')

    def test_quality(self):
        configuration = _tracks()
        configuration.build_qn_vector()
        self.assertFalse(configuration.plain_qn_vector.good_quality)

        configuration.add_data_vector(1., 1e-7)
        configuration.build_qn_vector()
        self.assertFalse(configuration.plain_qn_vector.good_quality)

        configuration.add_data_vector(1., 1e-6)
        configuration.build_qn_vector()
        self.assertTrue(configuration.plain_qn_vector.good_quality)

    def test_rebuild_starts_from_scratch(self):
        configuration = _tracks()
        configuration.add_data_vector(0.)
        configuration.build_qn_vector()
        configuration.build_qn_vector()
        self.assertAlmostEqual(configuration.plain_qn_vector.qx(1), 1.)

    def test_harmonic_map(self):
        configuration = _tracks(n_harmonics=None, harmonic_map=[2, 4])
        self.assertEqual(configuration.harmonic_map(), [2, 4])
        self.assertEqual(configuration.n_harmonics(), 2)
        self.assertEqual(configuration.corrected_qn_vector.harmonic_map(), [2, 4])


    def test_single_track_through_arrays(self):
        configuration = _tracks()
        configuration.add_data_vectors(0., 2.)
        configuration.build_qn_vector()
        self.assertAlmostEqual(configuration.plain_qn_vector.qx(1), 2.)


class TestEventSelection(TestCase):

    def test_without_cuts(self):
        self.assertTrue(_tracks().is_selected(np.array([150.])))

    def test_tracks_cuts(self):
        configuration = _tracks(cuts=qnflow.CutsSet([qnflow.CutWithin(0, 0., 50.)]))
        self.assertTrue(configuration.is_selected(np.array([10.])))
        self.assertFalse(configuration.is_selected(np.array([50.])))
        self.assertTrue(configuration.add_data_vector(0., variable_container=np.array([10.])))
        self.assertFalse(configuration.add_data_vector(0., variable_container=np.array([70.])))
        configuration.add_data_vectors(np.zeros(3), variable_container=np.array([70.]))
        self.assertEqual(len(configuration.data_vector_bank), 1)
        configuration.add_data_vectors(np.zeros(3), variable_container=np.array([20.]))
        self.assertEqual(len(configuration.data_vector_bank), 4)
        # Without event variables the data vector is always taken
        self.assertTrue(configuration.add_data_vector(0.))

class TestCorrectionWiring(TestCase):

    def test_input_data_corrections_need_channels(self):
        with self.assertRaises(qnflow.ConfigurationError):
            _tracks().add_correction_on_input_data(qnflow.GainEqualizationStep())

    def test_previous_corrected_qn_vector(self):
        configuration = _tracks()
        first, second = qnflow.RecenteringStep(), qnflow.RecenteringStep()
        configuration.add_correction_on_qn_vector(first)
        configuration.add_correction_on_qn_vector(second)
        configuration.create_support_data_structures()
        self.assertIs(first.detector_configuration, configuration)
        self.assertIs(first.input_qn_vector, configuration.plain_qn_vector)
        self.assertIs(second.input_qn_vector, first.corrected_qn_vector)

    def test_report_and_freeze(self):
        configuration = _tracks()
        configuration.add_correction_on_qn_vector(qnflow.RecenteringStep())
        configuration.create_support_data_structures()
        calibration_list = {}
        self.assertTrue(configuration.create_support_histograms(calibration_list))
        self.assertIn('Qn TPC', calibration_list['TPC'])
        self.assertFalse(configuration.attach_correction_inputs(None))
        calibrating, applying = [], []
        self.assertFalse(configuration.report_usage(calibrating, applying))
        self.assertEqual((calibrating, applying),
                         (['Recentering and width equalization'], []))
        self.assertFalse(configuration.freeze_calibration())


class TestChannelsDetectorConfiguration(TestCase):

    def setUp(self):
        self.configuration = qnflow.ChannelsDetectorConfiguration(
            'FMD', EVENT_CLASSES, n_channels=4, n_harmonics=1,
            used_channels=[True, True, False, True])

    def test_unused_channel_dropped(self):
        self.assertTrue(self.configuration.add_data_vector(0, 0., 2.))
        self.assertFalse(self.configuration.add_data_vector(2, 0., 2.))
        self.configuration.add_data_vectors([1, 2, 3], [0.1, 0.2, 0.3], [1., 1., 1.])
        data = self.configuration.input_data_samples()
        np.testing.assert_array_equal(data['channel'], [0, 1, 3])
        np.testing.assert_allclose(data['phi'], [0., 0.1, 0.3])
        np.testing.assert_allclose(data['equalized_weight'], data['weight'])

    def test_single_data_vector_through_arrays(self):
        self.configuration.add_data_vectors(1, 0.3, 2.)
        self.configuration.add_data_vectors(2, 0.4, 2.)
        data = self.configuration.input_data_samples()
        np.testing.assert_array_equal(data['channel'], [1])
        np.testing.assert_allclose(data['phi'], [0.3])
        np.testing.assert_allclose(data['weight'], [2.])

    def test_channel_selection(self):
        central, peripheral = np.array([10.]), np.array([90.])
        configuration = qnflow.ChannelsDetectorConfiguration(
            'FMD', EVENT_CLASSES, n_channels=4, n_harmonics=1,
            used_channels=[True, True, False, True],
            cuts=qnflow.CutsSet([qnflow.CutBelow(0, 50.)]))
        self.assertTrue(configuration.is_selected(central))
        self.assertTrue(configuration.is_selected(central, 1))
        self.assertFalse(configuration.is_selected(central, 2))
        self.assertFalse(configuration.is_selected(peripheral))
        self.assertFalse(configuration.is_selected(peripheral, 1))
        with self.assertRaises(qnflow.ConfigurationError):
            configuration.is_selected(central, 4)

        self.assertTrue(configuration.add_data_vector(0, 0., 1., variable_container=central))
        self.assertFalse(configuration.add_data_vector(0, 0., 1., variable_container=peripheral))
        configuration.add_data_vectors([1, 3], [0.1, 0.3], variable_container=peripheral)
        self.assertEqual(len(configuration.data_vector_bank), 1)
        configuration.add_data_vectors([1, 3], [0.1, 0.3], variable_container=central)
        self.assertEqual(len(configuration.data_vector_bank), 3)

    def test_channel_out_of_range(self):
        with self.assertRaises(qnflow.ConfigurationError):
            self.configuration.add_data_vector(4, 0.)
        with self.assertRaises(qnflow.ConfigurationError):
            self.configuration.add_data_vectors([0, -1], [0., 0.])
        with self.assertRaises(ValueError):
            self.configuration.add_data_vectors([0, 1], [0.])

    def test_builds_with_equalized_weights(self):
        self.configuration.add_data_vector(0, 0., 2.)
        self.configuration.input_data_samples()['equalized_weight'] = 5.
        self.configuration.build_qn_vector()
        self.assertAlmostEqual(self.configuration.plain_qn_vector.qx(1), 5.)

    def test_channel_arrays(self):
        np.testing.assert_array_equal(self.configuration.used_channels_mask(),
                                      [True, True, False, True])
        self.assertIsNone(self.configuration.channel_groups())
        self.assertIsNone(self.configuration.hard_coded_group_weights())
        self.assertFalse(self.configuration.uses_channel_groups)
        with self.assertRaises(qnflow.ConfigurationError):
            qnflow.ChannelsDetectorConfiguration(
                'FMD', EVENT_CLASSES, n_channels=4, channel_groups=[0, 0, 1])

    def test_clear(self):
        self.configuration.add_data_vector(0, 0., 2.)
        self.configuration.process_corrections(np.array([10.]))
        self.assertTrue(self.configuration.corrected_qn_vector.good_quality)
        self.configuration.clear_configuration()
        self.assertEqual(len(self.configuration.data_vector_bank), 0)
        self.assertFalse(self.configuration.plain_qn_vector.good_quality)
        self.assertEqual(self.configuration.corrected_qn_vector.qx(1), 0.)
