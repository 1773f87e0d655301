import unittest
import tempfile
from pathlib import Path
import numpy as np
import pandas as pd

from pipeline.config import PipelineConfig
from pipeline.main import run, main
from preprocessing.steps import load_preprocessor
from data.errors import InvalidOperation


class TestPipelineConfig(unittest.TestCase):

    def test_from_dict(self):
        config = PipelineConfig.from_dict({
            'data': {'train_file': 'train.csv', 'apply_files': ['test.csv'], 'label_column': 'Class'},
            'preprocessing': {'operations': ['nzv', 'pca'], 'options': {'pca_thresh': 0.9}},
            'class_distance': {'enabled': True, 'pca': True},
        })

        self.assertEqual(config.apply_files, ['test.csv'])
        self.assertEqual(config.options.pca_thresh, 0.9)
        self.assertTrue(config.class_distance)
        self.assertTrue(config.class_distance_options.pca)

    def test_yaml_round_trip(self):
        config = PipelineConfig(
            train_file='train.csv',
            operations=['range'],
            label_column='Class',
        )
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'config.yaml'
            config.to_yaml(str(path))
            loaded = PipelineConfig.from_yaml(str(path))

        self.assertEqual(loaded.to_dict(), config.to_dict())
        self.assertEqual(loaded.options.range_bounds, (0.0, 1.0))

    def test_validation(self):
        with self.assertRaises(ValueError):
            PipelineConfig.from_dict({'data': {}})
        with self.assertRaises(InvalidOperation):
            PipelineConfig(train_file='train.csv', operations=['normalize'])
        with self.assertRaises(ValueError):
            PipelineConfig(train_file='train.csv', class_distance=True)


class TestPipelineRun(unittest.TestCase):

    def setUp(self):
        np.random.seed(42)
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)

        def table(n, shift):
            df = pd.DataFrame(np.random.normal(shift, 1, (n, 3)), columns=['a', 'b', 'c'])
            df['flat'] = 1.0
            return df

        train = pd.concat([table(30, 0), table(30, 5)], ignore_index=True)
        train['Class'] = ['low'] * 30 + ['high'] * 30
        train.to_csv(self.root / 'train.csv', index=False)
        table(10, 2).to_csv(self.root / 'test.csv', index=False)

        self.config = PipelineConfig(
            train_file=str(self.root / 'train.csv'),
            apply_files=[str(self.root / 'test.csv')],
            output_dir=str(self.root / 'results'),
            label_column='Class',
            operations=['zv', 'center', 'scale'],
            class_distance=True,
        )

    def tearDown(self):
        self.tmp.cleanup()

    def test_run_writes_outputs(self):
        outputs = run(self.config)

        for key in ('preprocessor', 'train', 'test', 'report'):
            self.assertTrue(outputs[key].exists(), key)

        test_out = pd.read_csv(outputs['test'])
        self.assertEqual(list(test_out.columns), ['a', 'b', 'c', 'dist.high', 'dist.low'])
        self.assertEqual(len(test_out), 10)

        fitted = load_preprocessor(str(outputs['preprocessor']))
        self.assertEqual(fitted.removed_columns, {'flat': 'zv'})

        steps = pd.read_excel(outputs['report'], sheet_name='Steps', engine='openpyxl')
        self.assertEqual(list(steps['operation']), ['zv', 'center', 'scale'])

    def test_main_with_yaml_config(self):
        path = self.root / 'config.yaml'
        self.config.to_yaml(str(path))

        code = main(['--config', str(path), '--operations', 'nzv', 'pca', '--n-jobs', '1'])
        self.assertEqual(code, 0)
        self.assertTrue((self.root / 'results' / 'test_transformed.csv').exists())

    def test_main_reports_missing_config(self):
        self.assertEqual(main(['--config', str(self.root / 'absent.yaml')]), 1)


if __name__ == '__main__':
    unittest.main()
