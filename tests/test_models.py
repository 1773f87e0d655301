import unittest
import warnings
import numpy as np
import pandas as pd

from models.class_distance import ClassDistanceOptions, fit_class_distance, score, _group_continuous
from data.errors import SingularCovariance, DimensionMismatch, SchemaMismatch


class TestClassDistance(unittest.TestCase):

    def setUp(self):
        """Two well-separated 2-D classes."""
        np.random.seed(42)
        self.X = pd.DataFrame(
            np.vstack([
                np.random.normal(0, 1, (50, 2)),
                np.random.normal(10, 1, (50, 2)),
            ]),
            columns=['x', 'y']
        )
        self.labels = np.array(['A'] * 50 + ['B'] * 50)

    def test_own_class_is_closest(self):
        model = fit_class_distance(self.X, self.labels)
        held_out = pd.DataFrame({'x': [0.2, 9.7], 'y': [-0.1, 10.4]})

        distances = score(model, held_out)
        self.assertEqual(list(distances.columns), ['dist.A', 'dist.B'])
        self.assertLess(distances.loc[0, 'dist.A'], distances.loc[0, 'dist.B'])
        self.assertLess(distances.loc[1, 'dist.B'], distances.loc[1, 'dist.A'])

    def test_raw_squared_distance(self):
        model = fit_class_distance(self.X, self.labels)
        a = model.classes[0]

        point = np.array([[1.0, 2.0]])
        diff = point[0] - a.centroid
        expected = diff @ a.inverse_covariance @ diff

        distances = score(model, pd.DataFrame(point, columns=['x', 'y']), transform=None)
        self.assertAlmostEqual(distances.loc[0, 'dist.A'], expected)

        logged = score(model, pd.DataFrame(point, columns=['x', 'y']))
        self.assertAlmostEqual(logged.loc[0, 'dist.A'], np.log1p(expected))

    def test_centroid_and_covariance(self):
        model = fit_class_distance(self.X, self.labels)
        rows = self.X.to_numpy()[:50]

        np.testing.assert_allclose(model.classes[0].centroid, rows.mean(axis=0))
        np.testing.assert_allclose(
            model.classes[0].inverse_covariance,
            np.linalg.inv(np.cov(rows, rowvar=False))
        )

    def test_index_is_preserved(self):
        model = fit_class_distance(self.X, self.labels)
        test = self.X.iloc[[3, 60, 7]]

        distances = score(model, test)
        self.assertEqual(list(distances.index), [3, 60, 7])

    def test_label_length_mismatch(self):
        with self.assertRaises(DimensionMismatch) as ctx:
            fit_class_distance(self.X, self.labels[:-1])
        self.assertEqual(ctx.exception.expected, 100)
        self.assertEqual(ctx.exception.actual, 99)

    def test_missing_column_at_score(self):
        model = fit_class_distance(self.X, self.labels)
        with self.assertRaises(SchemaMismatch):
            score(model, self.X[['x']])

    def test_unknown_transform(self):
        model = fit_class_distance(self.X, self.labels)
        with self.assertRaises(ValueError):
            score(model, self.X, transform='sqrt')

    def test_continuous_labels_are_grouped(self):
        y = np.random.uniform(0, 1, len(self.X))
        model = fit_class_distance(self.X, y, ClassDistanceOptions(groups=4))

        self.assertEqual(len(model.classes), 4)
        self.assertEqual(len(model.bin_edges), 5)
        self.assertEqual(sum(c.n_samples for c in model.classes), len(self.X))

    def test_float_coded_classes_are_kept(self):
        y = np.array([0.0] * 50 + [1.0] * 50)
        model = fit_class_distance(self.X, y)

        self.assertEqual(model.labels, [0.0, 1.0])
        self.assertIsNone(model.bin_edges)
        self.assertEqual([c.n_samples for c in model.classes], [50, 50])

        distances = score(model, pd.DataFrame({'x': [0.2], 'y': [-0.1]}))
        self.assertEqual(list(distances.columns), ['dist.0.0', 'dist.1.0'])
        self.assertLess(distances.iloc[0, 0], distances.iloc[0, 1])

    def test_constant_float_label(self):
        X = self.X.iloc[:50]
        model = fit_class_distance(X, np.full(50, 1.5))

        self.assertEqual(model.labels, [1.5])
        self.assertEqual(model.classes[0].n_samples, 50)
        self.assertEqual(model.status, {1.5: 'ok'})

    def test_grouping_identical_values_fails(self):
        with self.assertRaises(ValueError):
            _group_continuous(np.full(20, 2.0), 4)


class TestSingularClasses(unittest.TestCase):

    def setUp(self):
        """A 'small' class with fewer samples than predictors."""
        np.random.seed(42)
        n_features = 10
        self.X = pd.DataFrame(
            np.vstack([
                np.random.normal(0, 1, (30, n_features)),
                np.random.normal(3, 1, (5, n_features)),
            ]),
            columns=[f"f{i}" for i in range(n_features)]
        )
        self.labels = ['big'] * 30 + ['small'] * 5

    def test_singular_covariance_reported_per_class(self):
        with self.assertRaises(SingularCovariance) as ctx:
            fit_class_distance(self.X, self.labels)

        error = ctx.exception
        self.assertEqual(error.classes, ['small'])
        self.assertEqual(error.status, {'big': 'ok', 'small': 'singular'})
        self.assertIsNotNone(error.model)

    def test_skip_scores_nan(self):
        options = ClassDistanceOptions(on_singular='skip')
        with self.assertWarns(UserWarning):
            model = fit_class_distance(self.X, self.labels, options)

        distances = score(model, self.X)
        self.assertTrue(distances['dist.small'].isna().all())
        self.assertTrue(np.all(np.isfinite(distances['dist.big'])))

    def test_within_class_pca(self):
        model = fit_class_distance(self.X, self.labels, ClassDistanceOptions(pca=True))

        self.assertEqual(model.status, {'big': 'ok', 'small': 'ok'})
        small = model.classes[1]
        self.assertLessEqual(small.n_components, 4)

        distances = score(model, self.X)
        self.assertTrue(np.all(np.isfinite(distances.to_numpy())))
        self.assertLess(distances['dist.small'].iloc[30:].mean(), distances['dist.big'].iloc[30:].mean())

    def test_fixed_component_count(self):
        model = fit_class_distance(self.X, self.labels, ClassDistanceOptions(pca=True, keep=2))
        self.assertEqual([c.n_components for c in model.classes], [2, 2])

    def test_incomplete_rows_excluded(self):
        X = self.X.copy()
        X.iloc[0, 0] = np.nan

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            model = fit_class_distance(X, self.labels, ClassDistanceOptions(pca=True))

        self.assertTrue(any('excluded' in str(w.message) for w in caught))
        self.assertEqual(model.classes[0].n_samples, 29)

    def test_options_from_config(self):
        options = ClassDistanceOptions.from_config({'class_distance': {'enabled': True, 'pca': True}})
        self.assertTrue(options.pca)

        with self.assertRaises(ValueError):
            ClassDistanceOptions.from_config({'class_distance': {'components': 3}})
        with self.assertRaises(ValueError):
            ClassDistanceOptions(on_singular='ignore')


if __name__ == '__main__':
    unittest.main()
