from __future__ import annotations

import csv
import unittest
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

from owner_analytics.services.export_service import ExportColumn, columns_for, format_cell, paginate, to_csv
from owner_analytics.services.metrics_service import MarginBand


@dataclass(frozen=True)
class ItemLine:
    item_name: str
    revenue: Decimal
    band: MarginBand


class PaginationTests(unittest.TestCase):
    def test_pages_slice_in_order(self) -> None:
        items = list(range(1, 24))
        first = paginate(items, page=1, page_size=10)
        last = paginate(items, page=3, page_size=10)
        self.assertEqual(first.items, list(range(1, 11)))
        self.assertEqual(first.total_pages, 3)
        self.assertTrue(first.has_next)
        self.assertFalse(first.has_previous)
        self.assertEqual(last.items, [21, 22, 23])
        self.assertFalse(last.has_next)
        self.assertTrue(last.has_previous)

    def test_page_past_the_end_is_empty(self) -> None:
        page = paginate([1, 2], page=5, page_size=10)
        self.assertEqual(page.items, [])
        self.assertEqual(page.total_items, 2)

    def test_empty_input_has_no_pages(self) -> None:
        page = paginate([], page=1, page_size=25)
        self.assertEqual(page.total_pages, 0)
        self.assertFalse(page.has_next)

    def test_invalid_arguments(self) -> None:
        with self.assertRaises(ValueError):
            paginate([1], page=0, page_size=10)
        with self.assertRaises(ValueError):
            paginate([1], page=1, page_size=0)
        with self.assertRaises(ValueError):
            paginate([1], page=1, page_size=501)


class CsvExportTests(unittest.TestCase):
    def test_header_and_rows_from_dataclasses(self) -> None:
        rows = [
            ItemLine(item_name='Knafeh', revenue=Decimal('20.5'), band=MarginBand.FAVORABLE),
            ItemLine(item_name='Tea', revenue=Decimal('8'), band=MarginBand.NEUTRAL),
        ]
        text = to_csv(rows, columns_for(ItemLine))
        self.assertEqual(text, 'Item Name,Revenue,Band\nKnafeh,20.5,favorable\nTea,8,neutral\n')

    def test_decimals_are_rounded_for_display(self) -> None:
        rows = [ItemLine(item_name='Tea', revenue=Decimal('1.23456'), band=MarginBand.NEUTRAL)]
        text = to_csv(rows, columns_for(ItemLine), decimals=3)
        self.assertIn('Tea,1.235,neutral', text)

    def test_special_characters_survive_a_reader(self) -> None:
        records = [
            {'name': 'Tea, large', 'note': 'He said "hot"'},
            {'name': 'Line\nbreak', 'note': None},
        ]
        columns = [ExportColumn(key='name', label='Name'), ExportColumn(key='note', label='Note')]
        text = to_csv(records, columns)
        self.assertIn('"Tea, large","He said ""hot"""', text)
        parsed = list(csv.reader(StringIO(text)))
        self.assertEqual(parsed, [['Name', 'Note'], ['Tea, large', 'He said "hot"'], ['Line\nbreak', '']])

    def test_computed_columns(self) -> None:
        columns = [ExportColumn(key='double', label='Double', value=lambda record: record['n'] * 2)]
        self.assertEqual(to_csv([{'n': 2}, {'n': 5}], columns), 'Double\n4\n10\n')

    def test_empty_records_still_write_the_header(self) -> None:
        self.assertEqual(to_csv([], columns_for(ItemLine)), 'Item Name,Revenue,Band\n')

    def test_columns_are_required(self) -> None:
        with self.assertRaises(ValueError):
            to_csv([{'a': 1}], [])
        with self.assertRaises(ValueError):
            columns_for(dict)


class FormatCellTests(unittest.TestCase):
    def test_scalar_formats(self) -> None:
        self.assertEqual(format_cell(None), '')
        self.assertEqual(format_cell(Decimal('1E+2')), '100')
        self.assertEqual(format_cell(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)), '2026-03-10T09:00:00+00:00')
        self.assertEqual(format_cell(7), '7')


if __name__ == '__main__':
    unittest.main()
