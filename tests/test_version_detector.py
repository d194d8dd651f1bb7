"""测试版本号检测"""

from multidict import CIMultiDict

from not_today.checkers.version import detect_version, version_to_string


class TestDetectVersion:
    """测试detect_version函数"""

    def test_header_takes_precedence(self):
        """测试响应头优先于响应体"""
        headers = CIMultiDict({'X-Version': '2.0.0'})

        assert detect_version(headers, {'version': '1.0.0'}) == '2.0.0'

    def test_header_case_insensitive(self):
        """测试响应头名称不区分大小写"""
        assert detect_version({'x-VERSION': '3.1'}, None) == '3.1'
        assert detect_version({'X-Version': '3.2'}, None) == '3.2'

    def test_empty_header_falls_back_to_body(self):
        """测试空响应头时使用响应体"""
        assert detect_version({'X-Version': ''}, {'version': '1.0.0'}) == '1.0.0'

    def test_body_version_stringified(self):
        """测试响应体中非字符串版本号转换为字符串"""
        assert detect_version({}, {'version': 2}) == '2'

    def test_no_version(self):
        """测试没有版本信息"""
        assert detect_version({}, None) is None
        assert detect_version({}, {'status': 'ok'}) is None
        assert detect_version(None, ['version']) is None

    def test_body_version_coerced_like_json_text(self):
        """测试非字符串版本号按 true/false/null 小写和整数形式转换"""
        assert detect_version({}, {'version': True}) == 'true'
        assert detect_version({}, {'version': False}) == 'false'
        assert detect_version({}, {'version': None}) == 'null'
        assert detect_version({}, {'version': 2.0}) == '2'
        assert detect_version({}, {'version': 2.5}) == '2.5'
        assert detect_version({}, {'version': ''}) == ''

    def test_version_to_string_containers(self):
        """测试数组和对象版本值的转换"""
        assert version_to_string([1, 2, None, 'rc']) == '1,2,,rc'
        assert version_to_string({'major': 1}) == '[object Object]'
        assert version_to_string(float('nan')) == 'NaN'
        assert version_to_string(float('-inf')) == '-Infinity'
