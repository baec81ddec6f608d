"""
amidoctor - Asterisk AMI 配置修复与诊断工具
"""
__version__ = "1.0.0"
