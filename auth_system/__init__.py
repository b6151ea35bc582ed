"""고객 토큰 저장소와 세션 관리"""
