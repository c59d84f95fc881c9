"""Parsers des relevés bancaires, liquidations et exports de commandes."""

from lucro_ecom.parsers.bank import BankStatementParser
from lucro_ecom.parsers.base import BaseParser, detect_file_format
from lucro_ecom.parsers.orders import OrderExportParser
from lucro_ecom.parsers.settlement import SettlementParser

__all__ = ["BankStatementParser", "BaseParser", "OrderExportParser", "SettlementParser", "detect_file_format"]
