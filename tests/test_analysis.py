import unittest
import numpy as np
import pandas as pd
from analysis.column_stats import detect_nzv, zero_variance_columns
from analysis.correlation import correlation_matrix, find_correlated
from analysis.linear_combos import find_linear_combos
from data.errors import InsufficientRank


def two_way_layout() -> np.ndarray:
    """Column 1 = column 2 + column 3 = column 4 + column 5 + column 6."""
    return np.array([
        [1, 1, 0, 1, 0, 0],
        [1, 1, 0, 0, 1, 0],
        [1, 1, 0, 0, 0, 1],
        [1, 0, 1, 1, 0, 0],
        [1, 0, 1, 0, 1, 0],
        [1, 0, 1, 0, 0, 1],
    ], dtype=float)


class TestColumnStatistics(unittest.TestCase):

    def setUp(self):
        np.random.seed(42)
        self.n_samples = 100
        self.df = pd.DataFrame({
            'normal': np.random.normal(0, 1, self.n_samples),
            'rare': [0.0] * 98 + [1.0, 2.0],
            'const': np.full(self.n_samples, 5.0),
            'binary': [0.0, 1.0] * 50,
        })

    def test_flags_unbalanced_and_constant_columns(self):
        self.assertEqual(detect_nzv(self.df), [1, 2])
        self.assertEqual(detect_nzv(self.df, names=True), ['rare', 'const'])

    def test_metrics_table(self):
        metrics = detect_nzv(self.df, save_metrics=True)

        self.assertEqual(list(metrics.index), list(self.df.columns))
        self.assertAlmostEqual(metrics.loc['rare', 'freq_ratio'], 98.0)
        self.assertAlmostEqual(metrics.loc['rare', 'percent_unique'], 3.0)
        self.assertTrue(np.isinf(metrics.loc['const', 'freq_ratio']))
        self.assertTrue(metrics.loc['const', 'zero_var'])
        self.assertFalse(metrics.loc['binary', 'nzv'])

    def test_joint_condition_required(self):
        """Ratio 50 and 50% unique must not be flagged even with a ratio cutoff of 10."""
        values = [0.0] * 50 + [float(v) for v in range(1, 49)]
        df = pd.DataFrame({'skewed': values})

        metrics = detect_nzv(df, freq_cut=10, save_metrics=True)
        self.assertAlmostEqual(metrics.loc['skewed', 'freq_ratio'], 50.0)
        self.assertAlmostEqual(metrics.loc['skewed', 'percent_unique'], 50.0)
        self.assertEqual(detect_nzv(df, freq_cut=10), [])

    def test_constant_column_flagged_on_few_rows(self):
        """With 8 rows a constant column has 12.5% unique values, above the cutoff."""
        df = pd.DataFrame({'const': np.full(8, 2.0), 'mostly_zero': [0.0] * 7 + [1.0]})

        metrics = detect_nzv(df, save_metrics=True)
        self.assertAlmostEqual(metrics.loc['const', 'percent_unique'], 12.5)
        self.assertEqual(detect_nzv(df, names=True), ['const'])

    def test_missing_values_are_ignored(self):
        df = pd.DataFrame({'a': [1.0, np.nan, np.nan, np.nan], 'b': [1.0, 2.0, 3.0, 4.0]})
        self.assertEqual(zero_variance_columns(df), ['a'])


class TestCorrelation(unittest.TestCase):

    def setUp(self):
        np.random.seed(42)
        n = 200
        base = np.random.normal(0, 1, n)
        self.df = pd.DataFrame({
            'x1': base,
            'x2': base + np.random.normal(0, 0.05, n),
            'x3': np.random.normal(0, 1, n),
            'x4': base + np.random.normal(0, 0.1, n),
            'x5': np.random.normal(0, 1, n),
        })

    def test_correlation_matrix_properties(self):
        df = self.df.assign(flat=1.0)
        corr = correlation_matrix(df)

        np.testing.assert_allclose(corr.to_numpy(), corr.to_numpy().T, equal_nan=True)
        np.testing.assert_allclose(np.diag(corr.to_numpy()), 1.0)
        self.assertTrue(np.isnan(corr.loc['x1', 'flat']))

    def test_complete_rows_only(self):
        df = pd.DataFrame({
            'a': [1.0, 2.0, 3.0, 4.0, 5.0],
            'b': [1.0, 2.0, 3.0, 5.0, 4.0],
            'c': [1.0, 2.0, 3.0, np.nan, np.nan],
        })

        pairwise = correlation_matrix(df, use='pairwise')
        complete = correlation_matrix(df, use='complete')

        self.assertAlmostEqual(pairwise.loc['a', 'b'], 0.9)
        self.assertAlmostEqual(complete.loc['a', 'b'], 1.0)
        with self.assertRaises(ValueError):
            correlation_matrix(df, use='everything')

    def test_removes_higher_mean_correlation_member(self):
        corr = np.array([
            [1.0, 0.95, 0.2],
            [0.95, 1.0, 0.5],
            [0.2, 0.5, 1.0],
        ])
        self.assertEqual(find_correlated(corr, cutoff=0.9), [1])

    def test_tie_removes_larger_index(self):
        corr = np.array([[1.0, 0.95], [0.95, 1.0]])
        self.assertEqual(find_correlated(corr, cutoff=0.9), [1])

    def test_removal_order_is_selection_order(self):
        corr = np.full((4, 4), 0.1)
        np.fill_diagonal(corr, 1.0)
        corr[0, 3] = corr[3, 0] = 0.99
        corr[1, 2] = corr[2, 1] = 0.95
        corr[1, 3] = corr[3, 1] = 0.3
        corr[0, 1] = corr[1, 0] = 0.2

        self.assertEqual(find_correlated(corr, cutoff=0.9), [3, 1])

    def test_undefined_entries_never_removed(self):
        corr = np.array([
            [1.0, np.nan, 0.3],
            [np.nan, 1.0, np.nan],
            [0.3, np.nan, 1.0],
        ])
        self.assertEqual(find_correlated(corr, cutoff=0.2), [2])

    def test_pruning_is_idempotent(self):
        removed = find_correlated(correlation_matrix(self.df), cutoff=0.9, names=True)
        self.assertGreater(len(removed), 0)
        self.assertNotIn('x3', removed)
        self.assertNotIn('x5', removed)

        pruned = self.df.drop(columns=removed)
        corr = correlation_matrix(pruned)
        off_diagonal = np.abs(corr.to_numpy()[~np.eye(len(corr), dtype=bool)])
        self.assertTrue(np.all(off_diagonal <= 0.9))
        self.assertEqual(find_correlated(corr, cutoff=0.9), [])

    def test_rejects_non_square(self):
        with self.assertRaises(ValueError):
            find_correlated(np.ones((2, 3)))


class TestLinearCombos(unittest.TestCase):

    def setUp(self):
        np.random.seed(42)

    def test_two_way_layout(self):
        X = two_way_layout()
        report = find_linear_combos(X)

        self.assertGreaterEqual(len(report.groups), 2)
        self.assertEqual(report.groups, ((0, 1, 2), (0, 3, 4, 5)))
        self.assertEqual(report.remove, (2, 5))

        reduced = np.delete(X, report.remove, axis=1)
        self.assertEqual(reduced.shape, (6, 4))
        self.assertEqual(np.linalg.matrix_rank(reduced), 4)

    def test_names(self):
        df = pd.DataFrame(two_way_layout(), columns=list('abcdef'))
        report = find_linear_combos(df)

        self.assertEqual(report.remove_names(), ['c', 'f'])
        self.assertEqual(report.group_names()[0], ['a', 'b', 'c'])

    def test_tolerance_scales_with_magnitude(self):
        report = find_linear_combos(two_way_layout() * 1e8)
        self.assertEqual(report.remove, (2, 5))

        report = find_linear_combos(two_way_layout() * 1e-8)
        self.assertEqual(report.remove, (2, 5))

    def test_full_rank_gives_empty_report(self):
        X = np.random.normal(0, 1, (20, 5))
        report = find_linear_combos(X)

        self.assertTrue(report.is_full_rank)
        self.assertEqual(report.groups, ())
        self.assertEqual(report.remove, ())

    def test_nearly_dependent_column_is_kept(self):
        X = np.random.normal(0, 1, (50, 3))
        X = np.column_stack([X, X[:, 0] + 1e-6 * np.random.normal(0, 1, 50)])
        self.assertTrue(find_linear_combos(X).is_full_rank)

    def test_wide_matrix(self):
        X = np.random.normal(0, 1, (3, 5))
        report = find_linear_combos(X)

        self.assertEqual(report.remove, (3, 4))
        self.assertEqual(np.linalg.matrix_rank(np.delete(X, report.remove, axis=1)), 3)

    def test_degenerate_matrix(self):
        with self.assertRaises(InsufficientRank):
            find_linear_combos(np.empty((0, 3)))
        with self.assertRaises(InsufficientRank):
            find_linear_combos(pd.DataFrame(index=range(4)))

    def test_column_limit(self):
        with self.assertRaises(ValueError):
            find_linear_combos(np.random.normal(0, 1, (10, 6)), max_columns=5)


if __name__ == '__main__':
    unittest.main()
