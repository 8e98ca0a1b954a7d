# pqms/domains/qc/__init__.py

"""
'qc' 도메인 패키지입니다.

시험 항목(Test)과 규격(TestSpecification) 카탈로그, 시료(Sample)의 수명주기,
시험 결과(Result) 입력과 규격 판정을 포함합니다.
"""
