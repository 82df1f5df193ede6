#!/usr/bin/env python3
"""
C# Parser using Tree-sitter

Extracts method, constructor and local function declarations with their line
spans. Used by the syntax method locator, which is not fooled by braces inside
string literals or comments.
"""

import logging
from typing import Any, Dict, List, Optional

import tree_sitter_c_sharp as tscs
from tree_sitter import Language, Node, Parser

from data_models import LineRange
from method_locator import MethodLocator

logger = logging.getLogger(__name__)

DECLARATION_TYPES = {
    'method_declaration': 'method',
    'constructor_declaration': 'constructor',
    'local_function_statement': 'local_function',
}
BODY_TYPES = {'block', 'arrow_expression_clause'}


def _node_text(node: Optional[Node]) -> Optional[str]:
    if node is None or node.text is None:
        return None
    return node.text.decode('utf8')


class CSharpParser:
    """A parser for C# using tree-sitter."""

    def __init__(self):
        self.language = Language(tscs.language())
        self.parser = Parser(self.language)

    def parse_source(self, source_code: str) -> Node:
        tree = self.parser.parse(bytes(source_code, 'utf8'))
        return tree.root_node

    def parse_file(self, file_path: str) -> Optional[Node]:
        """
        Parse a C# source file and return the root of the syntax tree.

        Args:
            file_path (str): Path to the C# source file

        Returns:
            Node: Root node, or None if the file cannot be read
        """
        try:
            with open(file_path, 'r', encoding='utf-8-sig', errors='replace') as f:
                source_code = f.read()
        except OSError as e:
            logger.warning(f"⚠ Could not read {file_path}: {e}")
            return None
        return self.parse_source(source_code)

    def extract_methods(self, root_node: Node) -> List[Dict[str, Any]]:
        """
        Extract method-like declarations in document order.

        Args:
            root_node (Node): Root node of the syntax tree

        Returns:
            List[Dict]: name, kind, return_type, parameters, start_line, end_line
        """
        methods = []

        def traverse(node: Node):
            if node.type in DECLARATION_TYPES:
                methods.append(self.extract_method_info(node))
            for child in node.children:
                traverse(child)

        traverse(root_node)
        return methods

    def extract_method_info(self, method_node: Node) -> Dict[str, Any]:
        # Attributes belong to the declaration node but sit above the signature
        signature_start = method_node
        for child in method_node.children:
            if child.type != 'attribute_list':
                signature_start = child
                break

        return_type = method_node.child_by_field_name('returns') or method_node.child_by_field_name('type')
        parameters = method_node.child_by_field_name('parameters')

        return {
            'name': _node_text(method_node.child_by_field_name('name')),
            'kind': DECLARATION_TYPES[method_node.type],
            'return_type': _node_text(return_type),
            'parameters': self.extract_parameters(parameters) if parameters else [],
            'start_line': signature_start.start_point[0] + 1,
            'end_line': method_node.end_point[0] + 1,
            'has_body': any(child.type in BODY_TYPES for child in method_node.children),
        }

    def extract_parameters(self, param_list_node: Node) -> List[Dict[str, Optional[str]]]:
        parameters = []
        for child in param_list_node.children:
            if child.type == 'parameter':
                parameters.append({
                    'type': _node_text(child.child_by_field_name('type')),
                    'name': _node_text(child.child_by_field_name('name')),
                })
        return parameters


class SyntaxMethodLocator(MethodLocator):
    """
    Locates methods through the C# syntax tree

    First declaration with an exactly matching name and a body wins, so
    overloads resolve the same way as in the heuristic locator and interface
    or abstract stubs are skipped.
    """

    def __init__(self, parser: Optional[CSharpParser] = None):
        self.parser = parser or CSharpParser()

    def locate(self, file_path: str, method_name: str) -> Optional[LineRange]:
        root_node = self.parser.parse_file(file_path)
        if root_node is None:
            return None
        return self.locate_in_tree(root_node, method_name)

    def locate_in_source(self, source_code: str, method_name: str) -> Optional[LineRange]:
        return self.locate_in_tree(self.parser.parse_source(source_code), method_name)

    def locate_in_tree(self, root_node: Node, method_name: str) -> Optional[LineRange]:
        for method in self.parser.extract_methods(root_node):
            if method['name'] == method_name and method['has_body']:
                return LineRange(start=method['start_line'], end=method['end_line'])
        logger.debug(f"No declaration named {method_name} in syntax tree")
        return None
