"""
Synexa-SIS Django project package.
PyMySQL is registered as MySQLdb so the production MySQL backend works without mysqlclient.
"""
import pymysql

pymysql.install_as_MySQLdb()
