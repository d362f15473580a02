# util/xml_convert.py
# Purpose: turn an XML document into plain dicts/lists/strings that can be
# served as JSON, following xml2js conventions:
#   - the root element is kept as the single top-level key
#   - attributes are merged into the element's dict
#   - a repeated child tag becomes a list; a single child is not wrapped
#   - a leaf element with no attributes becomes its text ("" when empty)
#   - text next to attributes/children goes under "_"
# All values stay strings; nothing is coerced to numbers.

from typing import Any, Dict, Union
import xml.etree.ElementTree as ET

TEXT_KEY = "_"


def _local_name(tag: str) -> str:
    # ElementTree spells namespaced tags as "{uri}name"
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _assign(obj: Dict[str, Any], key: str, value: Any) -> None:
    if key not in obj:
        obj[key] = value
    elif isinstance(obj[key], list):
        obj[key].append(value)
    else:
        obj[key] = [obj[key], value]


def _convert(elem: ET.Element) -> Any:
    text = elem.text or ""
    for child in elem:
        text += child.tail or ""

    if not len(elem) and not elem.attrib:
        return text

    obj: Dict[str, Any] = {}
    for name, value in elem.attrib.items():
        _assign(obj, _local_name(name), value)
    for child in elem:
        _assign(obj, _local_name(child.tag), _convert(child))
    if text.strip():
        _assign(obj, TEXT_KEY, text)
    return obj


def xml_to_dict(source: Union[str, bytes]) -> Dict[str, Any]:
    """
    Parse `source` and return {root_tag: converted_root}.
    Pass the raw response bytes when available so the XML declaration's
    encoding is honoured.
    Raises xml.etree.ElementTree.ParseError on malformed input.
    """
    root = ET.fromstring(source)
    return {_local_name(root.tag): _convert(root)}
