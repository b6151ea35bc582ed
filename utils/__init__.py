"""공통 유틸리티: 로깅, 오류 분류, 요청 게이트웨이, 입력 검증"""
