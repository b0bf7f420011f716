"""
Tests for memoization metadata records and the in-memory table.
"""

import json

from memopass.metadata import MemoRecord, MemoTable, MetadataSink
from memopass.pass_driver import MemoizePass

from test_rewriter import build_add_module


def make_record(variant='_memoized_add_1', constants=('1',)):
    return MemoRecord(
        original_name='add',
        variant_name=variant,
        constant_suffix=constants,
        canonical_signature=(('i64', 'original-argument'),),
        return_type='i64',
        constant_positions=(0,),
    )


class TestMemoRecord:
    def test_to_dict(self):
        data = make_record().to_dict()
        assert data == {
            'original_name': 'add',
            'variant_name': '_memoized_add_1',
            'constant_suffix': ['1'],
            'canonical_signature': [{'type': 'i64', 'origin': 'original-argument'}],
            'return_type': 'i64',
            'constant_positions': [0],
            'captured_globals': [],
        }

    def test_from_dict(self):
        record = make_record()
        assert MemoRecord.from_dict(record.to_dict()) == record

    def test_from_dict_optional_fields(self):
        record = MemoRecord.from_dict({
            'original_name': 'f',
            'variant_name': '_memoized_f',
            'constant_suffix': [],
            'canonical_signature': [],
            'return_type': 'double',
        })
        assert record.constant_positions == ()
        assert record.captured_globals == ()


class TestMemoTable:
    def setup_method(self):
        self.table = MemoTable()

    def test_collects_records(self):
        self.table.emit(make_record())
        self.table.emit(make_record('_memoized_add_2', ('2',)))
        assert len(self.table) == 2
        assert [r.variant_name for r in self.table] == ['_memoized_add_1', '_memoized_add_2']

    def test_for_function(self):
        self.table.emit(make_record())
        assert len(self.table.for_function('add')) == 1
        assert self.table.for_function('sub') == []

    def test_to_json(self):
        self.table.emit(make_record())
        data = json.loads(self.table.to_json())
        assert list(data) == ['variants']
        assert data['variants'][0]['variant_name'] == '_memoized_add_1'

    def test_write_and_read(self, tmp_path):
        self.table.emit(make_record())
        path = self.table.write(tmp_path / 'memo.json')
        assert path.exists()
        loaded = MemoTable.read(path)
        assert loaded.records == self.table.records

    def test_read_empty_document(self, tmp_path):
        path = tmp_path / 'empty.json'
        path.write_text('{}', encoding='utf-8')
        assert len(MemoTable.read(path)) == 0

    def test_records_from_pass(self):
        MemoizePass(sink=self.table).run(build_add_module())
        first = self.table.for_function('add')[0]
        assert first.constant_suffix == ('1',)
        assert first.canonical_signature == (('i64', 'original-argument'),)
        assert first.return_type == 'i64'


class TestCustomSink:
    def test_subclass_receives_records(self):
        class Collector(MetadataSink):
            def __init__(self):
                self.names = []

            def emit(self, record):
                self.names.append(record.variant_name)

        sink = Collector()
        MemoizePass(sink=sink).run(build_add_module())
        assert sink.names == ['_memoized_add_1', '_memoized_add_2']
