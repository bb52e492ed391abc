"""
Pyrelate 公共模块

包含异常定义和配置选项
"""
